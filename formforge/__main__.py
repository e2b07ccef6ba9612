"""Allow ``python -m formforge``."""

from formforge.pipeline import main

main()
