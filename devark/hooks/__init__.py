"""Hook files, tool settings, and hook installation."""
