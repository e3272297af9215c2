#!/usr/bin/env python3
"""
Bootstrap runner:
- Creates a local virtual environment in .venv if missing
- Installs the project and the Chromium build used by playwright
- Runs the FastAPI app with uvicorn

Usage: BOT_TOKEN=... ORIGINAL_ADMIN_ID=... python run.py
"""
import os
import subprocess
import sys
from pathlib import Path
import venv


ROOT = Path(__file__).parent.resolve()
VENV_DIR = ROOT / ".venv"


def venv_python() -> Path:
    if os.name == "nt":
        return VENV_DIR / "Scripts" / "python.exe"
    return VENV_DIR / "bin" / "python"


def ensure_venv():
    if not VENV_DIR.exists():
        print("Creating virtual environment at .venv ...")
        venv.EnvBuilder(with_pip=True).create(str(VENV_DIR))
    else:
        print("Virtual environment exists.")


def pip_install():
    print("Installing dependencies ...")
    if not (ROOT / "pyproject.toml").exists():
        print("pyproject.toml not found.")
        sys.exit(1)
    subprocess.check_call([str(venv_python()), "-m", "pip", "install", "-U", "pip", "wheel", "setuptools"])
    subprocess.check_call([str(venv_python()), "-m", "pip", "install", "-e", str(ROOT)])
    subprocess.check_call([str(venv_python()), "-m", "playwright", "install", "chromium"])


def run_server():
    for name in ("BOT_TOKEN", "ORIGINAL_ADMIN_ID"):
        if not os.getenv(name):
            print(f"{name} is not set.")
            sys.exit(1)
    host = os.getenv("HOST", "0.0.0.0")
    port = os.getenv("PORT", "10000")
    print(f"Starting bot with health endpoint at http://{host}:{port}/health ...")
    cmd = [str(venv_python()), "-m", "uvicorn", "pagepdf.main:app", "--host", host, "--port", port]
    subprocess.check_call(cmd, cwd=str(ROOT))


if __name__ == "__main__":
    ensure_venv()
    pip_install()
    run_server()
