import sys

from birdsql.main import main

sys.exit(main())
