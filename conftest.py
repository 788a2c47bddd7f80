# conftest.py at project root

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent

# Ensure project root is on sys.path so `import core`, `import infra` works
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
