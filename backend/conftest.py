"""
Pytest configuration for the shuttle backend tests.
"""
import sys
from pathlib import Path

# Add the backend directory to the path so tests and scripts import flat modules
sys.path.insert(0, str(Path(__file__).parent))
