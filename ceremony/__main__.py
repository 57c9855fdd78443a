# Copyright (c) Animica.
# SPDX-License-Identifier: MIT
"""Allow ``python -m ceremony``."""

from .cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
