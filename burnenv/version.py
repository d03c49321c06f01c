"""BurnEnv Meta information.
   BurnEnv shares short secrets through self-destructing encrypted envelopes.
"""
__title__ = 'burnenv'
__description__ = (
   'BurnEnv shares short secrets through encrypted envelopes '
   'that burn after a bounded number of views or a time window.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
