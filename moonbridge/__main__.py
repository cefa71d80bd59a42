"""Allow ``python -m moonbridge``."""

from moonbridge.daemon import main

if __name__ == "__main__":
    main()
