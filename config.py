"""Settings and limits shared by the ESNIKeys / ECHOConfig tools."""

import os

DEBUG = bool(os.environ.get('ESNIKEYS_DEBUG'))

MAX_ESNIKEYS_BUFLEN    = 1024 # won't get anywhere near that long
MAX_ECHOCONFIGS_BUFLEN = 2000
MAX_ESNI_COVER_NAME    = 254  # longer than this won't fit in SNI
MAX_ESNI_ADDRS         = 16   # max addresses in an AddressSet

# DNS RRTYPE used for the zone file fragment
ESNI_RRTYPE = 65439

DEFAULT_DURATION = 60*60*24*7           # one week
MIN_DURATION     = 3600                 # less than an hour seems unwise
MAX_DURATION     = DEFAULT_DURATION*52*10

DEFAULT_ESNI_PUBFILE  = 'esnikeys.pub'
DEFAULT_ESNI_PRIVFILE = 'esnikeys.priv'
DEFAULT_ZONEFRAG_FILE = 'zonedata.fragment'
DEFAULT_ECHO_PEMFILE  = 'echoconfig.pem'
