"""Background, blob and frame rendering."""
