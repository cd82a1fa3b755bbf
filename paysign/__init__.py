"""
Paysign - motor de firma y verificación para pasarelas Alipay y WeChat Pay.
"""

__version__ = "1.0.0"
