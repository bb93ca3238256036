"""Pure domain core: permissions, identifiers, price codec, weights, tokens, clock."""
