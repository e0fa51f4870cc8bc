"""Chain-level primitives: addresses, PDAs, wire codec, instructions, RPC."""
