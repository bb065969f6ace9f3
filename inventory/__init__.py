"""
Inventory API

IT asset and license inventory reporting service.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

__version__ = "1.0.0"
