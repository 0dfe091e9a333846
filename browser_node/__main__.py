"""Allow ``python -m browser_node``."""
from browser_node.cli import main

if __name__ == "__main__":
    main()
