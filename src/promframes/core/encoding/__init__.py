"""Encoders and decoders for wire and JSON formats."""
