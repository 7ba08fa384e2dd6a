"""Entry point for `python -m latticeflow`."""

from __future__ import annotations

import asyncio

from latticeflow.app import main

asyncio.run(main())
