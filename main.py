#!/usr/bin/env python3

from cosdi.cli import main


if __name__ == "__main__":
    main()
