"""HTTP surface for Recollect."""
