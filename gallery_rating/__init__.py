"""
Gallery Rating Engine - Core Package

This package contains the core modules for:
- Pairwise rating updates and leaderboard scoring (gallery_rating.elo)
- The transactional storage seam (gallery_rating.storage)
- Shared configuration and utilities
"""

from gallery_rating.config import *
