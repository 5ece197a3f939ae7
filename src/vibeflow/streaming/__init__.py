"""Stream decoding and the event protocol shared by adapters."""
