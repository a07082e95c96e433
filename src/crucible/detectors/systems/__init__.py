"""Systems detector - unsafe memory and FFI usage."""
