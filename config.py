"""
Configuration settings for Ollama Chat Relay
"""

import os

# API Configuration
OLLAMA_API_BASE = os.getenv("OLLAMA_API_BASE", "http://localhost:11434")
OLLAMA_BIN = os.getenv("OLLAMA_BIN", "ollama")

# Network Configuration
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8888"))
STATIC_DIR = os.getenv("STATIC_DIR", "static")

# Model Configuration
DEFAULT_MODEL = os.getenv("DEFAULT_MODEL", "llama3.1:8b")

AVAILABLE_MODELS = [
    # Coding & Software Engineering
    "qwen2.5-coder:7b",
    "deepseek-coder:6.7b",
    "deepseek-r1",
    "glm-4.6",
    "deepseek-v3.1",
    # Vision-Language & Multimodal
    "qwen3-vl",
    "llava:7b",
    "moondream:1.8b",
    # General Chat & Reasoning
    "qwen3:7b",
    "llama3.1:8b",
    "gemma2:9b",
    "mistral:7b",
    # Lightweight / Edge & Embeddings
    "phi3:mini",
    "tinyllama:1.1b",
    "nomic-embed-text",
]

# Generation
GENERATION_TIMEOUT = float(os.getenv("GENERATION_TIMEOUT", "60"))
TEMPERATURE = float(os.getenv("TEMPERATURE", "0.7"))

# `ollama list` should answer quickly; anything slower counts as unavailable
LIST_TIMEOUT = float(os.getenv("LIST_TIMEOUT", "10"))

# Installation
INSTALL_SCRIPT = os.getenv("INSTALL_SCRIPT", "./ollama_pull_and_run.sh")
INSTALL_TIMEOUT = float(os.getenv("INSTALL_TIMEOUT", "1800"))
INSTALL_WORKERS = int(os.getenv("INSTALL_WORKERS", "2"))
