"""Run the agent with ``python -m corpus_agent``."""

import sys

from corpus_agent.cli import main

sys.exit(main())
