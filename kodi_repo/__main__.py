import sys

from kodi_repo.cli import main

sys.exit(main())
