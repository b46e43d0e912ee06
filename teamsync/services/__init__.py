"""Business services layered on top of the mirrors."""
