"""
forum-bridge: migrate an exported forum corpus into the discussion platform.
"""
