"""
This module contains the configuration constants for the DKN Compute Launcher.
It defines remote endpoints, file names, supervisor timings and the model catalogs.
Values are read once at import time and injected into the components that need them.
"""

import os
import sys

#* --- Remote Endpoints ---
COMPUTE_REPO = "firstbatchxyz/dkn-compute-node"
LAUNCHER_REPO = "firstbatchxyz/dkn-compute-launcher"
GITHUB_API_URL = "https://api.github.com/repos"
COMPUTE_LATEST_RELEASE_URL = f"{GITHUB_API_URL}/{COMPUTE_REPO}/releases/latest"
COMPUTE_TAGS_URL = f"{GITHUB_API_URL}/{COMPUTE_REPO}/tags"
LAUNCHER_LATEST_RELEASE_URL = f"{GITHUB_API_URL}/{LAUNCHER_REPO}/releases/latest"
COMPUTE_DOWNLOAD_URL = f"https://github.com/{COMPUTE_REPO}/releases/download"
ENV_TEMPLATE_URL = f"https://raw.githubusercontent.com/{COMPUTE_REPO}/master/.env.example"
LAUNCHER_DOWNLOAD_PAGE = "https://dria.co/join"
HTTP_USER_AGENT = "dkn-compute-launcher"
HTTP_TIMEOUT = int(os.getenv("DKN_LAUNCHER_HTTP_TIMEOUT", "30"))  # seconds

#* --- File Names ---
ENV_FILE_NAME = ".env"
ENV_EXAMPLE_FILE_NAME = ".env.example"
BACKGROUND_LOG_FILE_NAME = "logs.txt"
COMPUTE_BINARY_NAME = "dkn_compute.exe" if sys.platform == "win32" else "dkn_compute"
TEMP_BINARY_PREFIX = "temp-"
DEV_TAG_SUFFIX = "-dev"

#* --- Supervisor Settings ---
LIVENESS_CHECK_INTERVAL = float(os.getenv("DKN_LAUNCHER_LIVENESS_INTERVAL", "5"))  # seconds
UPDATE_CHECK_INTERVAL = float(os.getenv("DKN_LAUNCHER_UPDATE_INTERVAL", str(60 * 60)))  # seconds
GRACEFUL_STOP_TIMEOUT = 10  # seconds before force-killing
EXIT_DELAY_SECONDS = float(os.getenv("DKN_LAUNCHER_EXIT_DELAY", "5"))
FILE_DESCRIPTOR_LIMIT = 10000
PROCESS_TITLE = "DKN - Compute Launcher"

#* --- Ollama Settings ---
DEFAULT_OLLAMA_PORT = 11434
LOCAL_HOST = "http://localhost"
DOCKER_HOST = "http://host.docker.internal"
OLLAMA_MAX_RETRIES = 5
OLLAMA_RETRY_DELAY = 2  # seconds

#* --- Node Settings ---
# Default admin public key, used unless --dkn-admin-public-key is given.
DKN_ADMIN_PUBLIC_KEY = "0208ef5e65a9c656a6f92fb2c770d5d5e2ecffe02a6aade19207f75110be6ae658"

RUST_LOG_LEVELS = {
    "info": "none,dkn_compute=info,dkn_p2p=info,dkn_workflows=info",
    "debug": "none,dkn_compute=debug,dkn_p2p=debug,dkn_workflows=debug,ollama_workflows=info",
    "trace": "none,dkn_compute=trace,dkn_p2p=trace,dkn_workflows=trace",
}

#* --- Model Catalogs ---
OPENAI_MODELS = (
    "gpt-4-turbo",
    "gpt-4o",
    "gpt-4o-mini",
    "o1-mini",
    "o1-preview",
)

GEMINI_MODELS = (
    "gemini-1.0-pro",
    "gemini-1.5-pro",
    "gemini-1.5-pro-exp-0827",
    "gemini-1.5-flash",
    "gemini-2.0-flash-exp",
    "gemma-2-2b-it",
    "gemma-2-9b-it",
    "gemma-2-27b-it",
)

OPENROUTER_MODELS = (
    "meta-llama/llama-3.1-8b-instruct",
    "meta-llama/llama-3.1-70b-instruct",
    "meta-llama/llama-3.1-405b-instruct",
    "meta-llama/llama-3.1-70b-instruct:free",
    "meta-llama/llama-3.3-70b-instruct",
    "anthropic/claude-3.5-sonnet:beta",
    "anthropic/claude-3-5-haiku-20241022:beta",
    "qwen/qwen-2.5-72b-instruct",
    "qwen/qwen-2.5-7b-instruct",
    "qwen/qwen-2.5-coder-32b-instruct",
    "qwen/qwq-32b-preview",
    "deepseek/deepseek-chat",
    "nousresearch/hermes-3-llama-3.1-405b",
    "nvidia/llama-3.1-nemotron-70b-instruct",
)

OLLAMA_MODELS = (
    "finalend/hermes-3-llama-3.1:8b-q8_0",
    "phi3:14b-medium-4k-instruct-q4_1",
    "phi3:14b-medium-128k-instruct-q4_1",
    "phi3.5:3.8b",
    "phi3.5:3.8b-mini-instruct-fp16",
    "gemma2:9b-instruct-q8_0",
    "gemma2:9b-instruct-fp16",
    "llama3.1:latest",
    "llama3.1:8b-instruct-q8_0",
    "llama3.1:8b-instruct-fp16",
    "llama3.1:8b-text-q4_K_M",
    "llama3.1:8b-text-q8_0",
    "llama3.1:70b-instruct-q4_0",
    "llama3.1:70b-instruct-q8_0",
    "llama3.1:70b-text-q4_0",
    "llama3.3:70b",
    "llama3.2:1b",
    "llama3.2:1b-text-q4_K_M",
    "llama3.2:3b",
    "qwen2.5:7b-instruct-q5_0",
    "qwen2.5:7b-instruct-fp16",
    "qwen2.5:32b-instruct-fp16",
    "qwen2.5-coder:1.5b",
    "qwen2.5-coder:7b-instruct",
    "qwen2.5-coder:7b-instruct-q8_0",
    "qwen2.5-coder:7b-instruct-fp16",
    "qwq",
    "deepseek-coder:6.7b",
    "mixtral:8x7b",
)

# Provider name -> (catalog, API key env var). Ollama needs no key.
MODEL_PROVIDERS = {
    "OpenAI": (OPENAI_MODELS, "OPENAI_API_KEY"),
    "Gemini": (GEMINI_MODELS, "GEMINI_API_KEY"),
    "OpenRouter": (OPENROUTER_MODELS, "OPENROUTER_API_KEY"),
    "Ollama": (OLLAMA_MODELS, None),
}

OPTIONAL_API_KEYS = {
    "JINA_API_KEY": "Jina",
    "SERPER_API_KEY": "Serper",
}
