"""healthloop - progression and synchronized-collection engine for a health tracking app"""

__version__ = "0.1.0"
