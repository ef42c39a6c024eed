from scnlib.io import scn

__all__ = ["scn"]
