"""Allow ``python -m autopublish``."""

from autopublish.cli import main

raise SystemExit(main())
