# -*- coding: utf-8 -*-
import sys

from pgbootstrap.main_installer import main_bootstrap_entry

if __name__ == "__main__":
    sys.exit(main_bootstrap_entry())
