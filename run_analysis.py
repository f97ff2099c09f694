"""
Simple launcher script for Study Engagement Analytics

This script runs the command line interface straight from a source checkout
without installing the package.
"""

import sys
from pathlib import Path

# Add src to Python path
project_root = Path(__file__).parent
src_path = project_root / 'src'
sys.path.insert(0, str(src_path))

from engagement_analytics.main import main


if __name__ == "__main__":
    sys.exit(main())
