import sys

from short.cli import server_main

sys.exit(server_main())
