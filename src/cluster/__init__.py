"""Control-plane access: decoding, creation, cleanup and convergence waits."""
