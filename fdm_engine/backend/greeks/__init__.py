"""Greeks from a solved grid."""
