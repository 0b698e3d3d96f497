"""Allow ``python -m isolend``."""
from .cli import main

main()
