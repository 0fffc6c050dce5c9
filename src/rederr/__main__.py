"""rederr entry point.

Supports: python -m rederr
"""

from .app import main

if __name__ == "__main__":
    main()
