import sys

from azhistory.main import main

sys.exit(main())
