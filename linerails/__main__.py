"""Allow running as: python -m linerails"""

from .cli import main

main()
