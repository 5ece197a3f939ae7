"""Provider adapters, descriptors and the model catalog."""
