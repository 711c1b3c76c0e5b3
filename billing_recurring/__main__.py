import sys

from billing_recurring.cli import main

sys.exit(main())
