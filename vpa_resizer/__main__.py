import sys

from vpa_resizer.cli import main

sys.exit(main())
