"""Chat platform capabilities and the Discord implementation of them."""
