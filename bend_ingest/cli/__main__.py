import sys

from bend_ingest.cli.ingest_cli import main

sys.exit(main())
