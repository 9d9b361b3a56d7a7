import sys

from kmemtrace.commands import main

if __name__ == "__main__":
    sys.exit(main())
