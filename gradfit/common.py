from pathlib import Path

BUILD_DIR = Path("build")
