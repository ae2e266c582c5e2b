import sys

from acme_autocert import cli

sys.exit(cli.main())
