"""大量の画像を解像度候補に合わせて切り抜き・リサイズするツール"""

__version__ = "0.1.1"
