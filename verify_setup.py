"""
Setup verification script for the lesson note generator.
Checks dependencies, configuration, the knowledge base, the completion
provider and the headless browser used for PDF export.
"""
import asyncio
import sys
import os
from typing import Callable, List, Tuple

# Color codes for terminal output
GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
RESET = "\033[0m"


def print_status(message: str, status: bool):
    """Print colored status message."""
    symbol = f"{GREEN}✓{RESET}" if status else f"{RED}✗{RESET}"
    print(f"{symbol} {message}")


async def check_python_version() -> bool:
    """Check Python version is 3.11+."""
    version = sys.version_info
    if version.major == 3 and version.minor >= 11:
        print_status(f"Python version: {version.major}.{version.minor}.{version.micro}", True)
        return True
    else:
        print_status(f"Python version {version.major}.{version.minor} (requires 3.11+)", False)
        return False


async def check_dependencies() -> bool:
    """Check if required packages are installed."""
    required_packages = [
        "fastapi",
        "uvicorn",
        "pydantic_settings",
        "httpx",
        "aiofiles",
        "docx",
        "fitz",
        "openpyxl",
        "xlrd",
        "markdown_it",
        "mdit_py_plugins",
        "latex2mathml",
        "bs4",
        "playwright",
    ]

    all_installed = True
    for package in required_packages:
        try:
            __import__(package)
            print_status(f"Package '{package}' installed", True)
        except ImportError:
            print_status(f"Package '{package}' missing", False)
            all_installed = False

    return all_installed


async def check_env_file() -> bool:
    """Check if .env file exists."""
    if os.path.exists(".env"):
        print_status(".env file exists", True)
        return True
    else:
        print_status(".env file missing (copy from .env.example)", False)
        return False


async def check_knowledge_dir() -> bool:
    """Check the knowledge directory holds at least one .docx reference."""
    from notegen.config import settings
    from notegen.services.knowledge import load_docx_from_dir

    if not os.path.isdir(settings.KNOWLEDGE_DIR):
        print_status(f"Knowledge directory {settings.KNOWLEDGE_DIR} missing", False)
        print(f"  {YELLOW}Notes will be generated without reference excerpts{RESET}")
        return False

    docs = await load_docx_from_dir(settings.KNOWLEDGE_DIR)
    print_status(f"Knowledge directory: {len(docs)} reference document(s)", bool(docs))
    return bool(docs)


async def check_llm() -> bool:
    """Check the configured completion provider is reachable."""
    from notegen.config import settings

    provider = settings.LLM_PROVIDER.lower()
    if provider != "ollama":
        has_key = bool(settings.GEMINI_API_KEY)
        print_status(f"Gemini API key: {'Set' if has_key else 'Missing'}", has_key)
        print_status(f"Gemini model: {settings.GEMINI_MODEL}", has_key)
        return has_key

    try:
        import httpx

        async with httpx.AsyncClient(timeout=5.0) as client:
            response = await client.get(f"{settings.OLLAMA_BASE_URL}/api/tags")

            if response.status_code == 200:
                print_status("Ollama service is running", True)

                model_names = [m["name"] for m in response.json().get("models", [])]
                model = settings.OLLAMA_LLM_MODEL
                has_llm = any(model in name for name in model_names)

                print_status(f"LLM model ({model}): {'Found' if has_llm else 'Missing'}", has_llm)
                return has_llm
            else:
                print_status(f"Ollama service error (status {response.status_code})", False)
                return False

    except Exception as e:
        print_status(f"Ollama connection failed: {str(e)}", False)
        print(f"  {YELLOW}Make sure Ollama is installed and running{RESET}")
        print(f"  {YELLOW}Install from: https://ollama.ai/{RESET}")
        return False


async def check_chromium() -> bool:
    """Check Playwright can launch headless Chromium for PDF export."""
    try:
        from playwright.async_api import async_playwright

        async with async_playwright() as p:
            browser = await p.chromium.launch()
            await browser.close()

        print_status("Headless Chromium available", True)
        return True

    except Exception as e:
        print_status(f"Chromium launch failed: {str(e)}", False)
        print(f"  {YELLOW}Run: playwright install chromium{RESET}")
        return False


async def main():
    """Run all verification checks."""
    print(f"\n{BLUE}{'='*60}{RESET}")
    print(f"{BLUE}Lesson Note Generator - Setup Verification{RESET}")
    print(f"{BLUE}{'='*60}{RESET}\n")

    checks: List[Tuple[str, Callable]] = [
        ("Python Version", check_python_version),
        ("Dependencies", check_dependencies),
        ("Environment File", check_env_file),
        ("Knowledge Directory", check_knowledge_dir),
        ("Completion Provider", check_llm),
        ("PDF Export Browser", check_chromium),
    ]

    results = []

    for check_name, check_func in checks:
        print(f"\n{BLUE}Checking {check_name}...{RESET}")
        try:
            result = await check_func()
            results.append(result)
        except Exception as e:
            print_status(f"Error during check: {str(e)}", False)
            results.append(False)

    # Summary
    print(f"\n{BLUE}{'='*60}{RESET}")
    passed = sum(results)
    total = len(results)

    if passed == total:
        print(f"{GREEN}✓ All checks passed! ({passed}/{total}){RESET}")
        print(f"\n{GREEN}You're ready to run the backend:{RESET}")
        print(f"  uvicorn notegen.main:app --reload")
    else:
        print(f"{RED}✗ Some checks failed ({passed}/{total} passed){RESET}")
        print(f"\n{YELLOW}Please fix the issues above before running the backend.{RESET}")
        sys.exit(1)

    print(f"{BLUE}{'='*60}{RESET}\n")


if __name__ == "__main__":
    asyncio.run(main())
