import sys

from cardscan.main import main

sys.exit(main())
