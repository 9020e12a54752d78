__version__ = "0.3.0"
__codename__ = "HATLOOP"
__tagline__ = "Swap hats. Ship code."

BANNER = r"""
  _   _    _  _____ _     ___   ___  ____
 | | | |  / \|_   _| |   / _ \ / _ \|  _ \
 | |_| | / _ \ | | | |  | | | | | | | |_) |
 |  _  |/ ___ \| | | |__| |_| | |_| |  __/
 |_| |_/_/   \_\_| |_____\___/ \___/|_|
"""
