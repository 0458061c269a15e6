"""Allow ``python -m sortnbackup``."""

from sortnbackup import main

if __name__ == "__main__":
    main()
