"""Entry point for running papersort as a module.

Usage:
    python -m papersort classify scans/
    python -m papersort --help
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env (PAPERSORT_CONFIG_PATH, TESSDATA_PREFIX) before other imports

from papersort.cli import main  # noqa: E402

if __name__ == "__main__":
    main()
