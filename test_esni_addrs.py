#!/usr/bin/env python3

import socket

import pytest

from esni_common import *
import esni_addrs
from esni_addrs import (
    AddressSetExtension,
    ADDRESS_SET_TYPE,
    add_address,
    address_set_extension,
    dedup_addresses,
    encode_address,
    is_ipv6_literal,
    read_address_file,
    resolve_addresses,
)


def test_v4_and_v6() -> None:
    ext = address_set_extension(['10.0.0.1', '::1'])
    assert ext.typ == ADDRESS_SET_TYPE == 0x1001
    assert ext.data == bytes.fromhex('040a000001' '06' + '00'*15 + '01')

def test_literal_header() -> None:
    ext = address_set_extension(['10.0.0.1', '::1'])
    nelen = len(ext.data)
    assert nelen == 22
    # block length is not nelen + 4 for this extension
    assert ext.encode() == bytes([0x00, 0x19, 0x10, 0x01, 0x00, 0x16]) + ext.data

def test_literal_header_high_byte() -> None:
    # 0xfd + 3 wraps the low byte while 0xfd + 4 carries into the high one
    ext = AddressSetExtension(data=b'\x00' * 0x1fd)
    assert ext.encode()[:2] == bytes([0x02, 0x00])

def test_dedup() -> None:
    assert dedup_addresses(['10.0.0.1', '10.0.0.1']) == ['10.0.0.1']
    ext = address_set_extension(dedup_addresses(['10.0.0.1', '10.0.0.1']))
    assert ext.data == bytes.fromhex('040a000001')

def test_add_address() -> None:
    addrs: list[str] = []
    assert add_address(addrs, '192.0.2.1')
    assert not add_address(addrs, '192.0.2.1')
    assert add_address(addrs, '192.0.2.10')
    assert addrs == ['192.0.2.1', '192.0.2.10']

def test_too_many() -> None:
    addrs = [f'10.0.0.{i}' for i in range(17)]
    with pytest.raises(TooManyAddresses):
        dedup_addresses(addrs)
    with pytest.raises(TooManyAddresses):
        address_set_extension(addrs)
    assert len(address_set_extension(addrs[:16]).data) == 16 * 5

def test_colon_heuristic() -> None:
    assert is_ipv6_literal('::ffff:10.0.0.1')
    assert not is_ipv6_literal('10.0.0.1')
    assert encode_address('::ffff:10.0.0.1')[0] == 0x06
    assert len(encode_address('::ffff:10.0.0.1')) == 17

def test_parse_errors() -> None:
    for bad in ('10.0.0.256', 'not-an-address', '1:2:3', ''):
        with pytest.raises(AddressParseError):
            encode_address(bad)
    with pytest.raises(AddressParseError):
        address_set_extension(['10.0.0.1', 'bogus'])

def test_read_address_file(tmp_path) -> None:
    fname = tmp_path / 'addrs.txt'
    fname.write_text('# cover name addresses\n192.0.2.1\n2001:db8::1\n\n192.0.2.1\n')
    assert read_address_file(fname) == ['192.0.2.1', '2001:db8::1']

def test_resolve(monkeypatch) -> None:
    def fake_getaddrinfo(host, port):
        assert host == 'cover.example'
        return [
            (socket.AF_INET, socket.SOCK_STREAM, 6, '', ('192.0.2.7', 0)),
            (socket.AF_INET, socket.SOCK_DGRAM, 17, '', ('192.0.2.7', 0)),
            (socket.AF_INET6, socket.SOCK_STREAM, 6, '', ('2001:db8::7', 0, 0, 0)),
        ]
    monkeypatch.setattr(esni_addrs.socket, 'getaddrinfo', fake_getaddrinfo)
    assert resolve_addresses('cover.example') == ['192.0.2.7', '2001:db8::7']

def test_resolve_failure(monkeypatch) -> None:
    def fake_getaddrinfo(host, port):
        raise socket.gaierror(socket.EAI_NONAME, 'Name or service not known')
    monkeypatch.setattr(esni_addrs.socket, 'getaddrinfo', fake_getaddrinfo)
    with pytest.raises(ResolutionError):
        resolve_addresses('nowhere.invalid')
    with pytest.raises(ResolutionError):
        resolve_addresses('')


if __name__ == '__main__':
    pytest.main([__file__])
