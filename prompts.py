"""
Prompt template wrapped around every user query
"""

from jinja2 import Template

SYSTEM_TEMPLATE = Template("""You are a helpful coding assistant. When providing code examples:
1. Always use proper markdown formatting with language-specific syntax highlighting
2. Use triple backticks with the language name for code blocks (e.g. "```python")
3. Format code in a clean, readable way with proper indentation
4. Use VSCode-style syntax highlighting conventions

User Query: {{ query }}
""", keep_trailing_newline=True)


def format_prompt(query: str) -> str:
    """Wrap a raw user query in the coding assistant instructions"""
    return SYSTEM_TEMPLATE.render(query=query)
