#  Copyright (C) 2024 The Android Open Source Project
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.

# Lint as: python3
"""Decoders and filters for raw IPv6 packets captured on Thread interfaces.

Every decoder checks the buffer length before reading. The filters and the
Router Advertisement scanner treat malformed input as "no match", since
packets on the test network could be sent by anybody.
"""

from __future__ import annotations

import dataclasses
import ipaddress
import logging
import struct
from typing import ClassVar

from thread_network import constants

_Ipv6AddressLike = ipaddress.IPv6Address | str


class MalformedPacketError(ValueError):
    """Error raised when a buffer is too short for the header being decoded."""


def _unpack(fmt: struct.Struct, buf: bytes, offset: int, name: str) -> tuple:
    if offset < 0 or len(buf) - offset < fmt.size:
        raise MalformedPacketError(
            f'{name} needs {fmt.size} bytes at offset {offset}, but the buffer'
            f' has {len(buf)} bytes.'
        )
    return fmt.unpack_from(buf, offset)


@dataclasses.dataclass(frozen=True)
class Ipv6Header:
    """Fixed IPv6 header (RFC 8200 section 3)."""

    _FORMAT: ClassVar[struct.Struct] = struct.Struct('!IHBB16s16s')
    SIZE: ClassVar[int] = _FORMAT.size

    version_tc_fl: int
    payload_length: int
    next_header: int
    hop_limit: int
    src_ip: ipaddress.IPv6Address
    dst_ip: ipaddress.IPv6Address

    @classmethod
    def parse(cls, buf: bytes, offset: int = 0) -> Ipv6Header:
        vtf, plen, nh, hlim, src, dst = _unpack(
            cls._FORMAT, buf, offset, 'IPv6 header'
        )
        return cls(
            version_tc_fl=vtf,
            payload_length=plen,
            next_header=nh,
            hop_limit=hlim,
            src_ip=ipaddress.IPv6Address(src),
            dst_ip=ipaddress.IPv6Address(dst),
        )

    def to_bytes(self) -> bytes:
        return self._FORMAT.pack(
            self.version_tc_fl,
            self.payload_length,
            self.next_header,
            self.hop_limit,
            self.src_ip.packed,
            self.dst_ip.packed,
        )


@dataclasses.dataclass(frozen=True)
class Icmpv6Header:
    """Leading fields shared by every ICMPv6 message (RFC 4443)."""

    _FORMAT: ClassVar[struct.Struct] = struct.Struct('!BBH')
    SIZE: ClassVar[int] = _FORMAT.size

    type: int
    code: int
    checksum: int

    @classmethod
    def parse(cls, buf: bytes, offset: int = 0) -> Icmpv6Header:
        return cls(*_unpack(cls._FORMAT, buf, offset, 'ICMPv6 header'))

    def to_bytes(self) -> bytes:
        return self._FORMAT.pack(self.type, self.code, self.checksum)


@dataclasses.dataclass(frozen=True)
class RaHeader:
    """Router Advertisement fields after the ICMPv6 header (RFC 4861 4.2)."""

    _FORMAT: ClassVar[struct.Struct] = struct.Struct('!BBHII')
    SIZE: ClassVar[int] = _FORMAT.size

    hop_limit: int
    flags: int
    router_lifetime: int
    reachable_time: int
    retrans_timer: int

    @classmethod
    def parse(cls, buf: bytes, offset: int = 0) -> RaHeader:
        return cls(*_unpack(cls._FORMAT, buf, offset, 'RA header'))

    def to_bytes(self) -> bytes:
        return self._FORMAT.pack(
            self.hop_limit,
            self.flags,
            self.router_lifetime,
            self.reachable_time,
            self.retrans_timer,
        )


@dataclasses.dataclass(frozen=True)
class PrefixInformationOption:
    """Prefix Information Option (RFC 4861 section 4.6.2)."""

    _FORMAT: ClassVar[struct.Struct] = struct.Struct('!BBBBIII16s')
    SIZE: ClassVar[int] = _FORMAT.size

    FLAG_ON_LINK: ClassVar[int] = 0x80
    FLAG_AUTONOMOUS: ClassVar[int] = 0x40
    FLAG_ROUTER_ADDRESS: ClassVar[int] = 0x20
    FLAG_DHCPV6_PD_PREFERRED: ClassVar[int] = 0x10

    prefix_length: int
    flags: int
    valid_lifetime: int
    preferred_lifetime: int
    prefix: ipaddress.IPv6Address
    type: int = constants.NdOptionType.PREFIX_INFORMATION
    length: int = 4
    reserved: int = 0

    @classmethod
    def parse(cls, buf: bytes, offset: int = 0) -> PrefixInformationOption:
        (
            opt_type,
            length,
            prefix_length,
            flags,
            valid,
            preferred,
            reserved,
            prefix,
        ) = _unpack(cls._FORMAT, buf, offset, 'Prefix Information Option')
        return cls(
            prefix_length=prefix_length,
            flags=flags,
            valid_lifetime=valid,
            preferred_lifetime=preferred,
            prefix=ipaddress.IPv6Address(prefix),
            type=opt_type,
            length=length,
            reserved=reserved,
        )

    def to_bytes(self) -> bytes:
        return self._FORMAT.pack(
            self.type,
            self.length,
            self.prefix_length,
            self.flags,
            self.valid_lifetime,
            self.preferred_lifetime,
            self.reserved,
            self.prefix.packed,
        )

    @property
    def on_link(self) -> bool:
        return bool(self.flags & self.FLAG_ON_LINK)

    @property
    def autonomous(self) -> bool:
        return bool(self.flags & self.FLAG_AUTONOMOUS)

    @property
    def router_address(self) -> bool:
        return bool(self.flags & self.FLAG_ROUTER_ADDRESS)

    @property
    def dhcpv6_pd_preferred(self) -> bool:
        return bool(self.flags & self.FLAG_DHCPV6_PD_PREFERRED)

    @property
    def network(self) -> ipaddress.IPv6Network:
        """The advertised prefix, with host bits cleared."""
        return ipaddress.IPv6Network(
            (self.prefix, self.prefix_length), strict=False
        )


def _to_ipv6_address(address: _Ipv6AddressLike) -> ipaddress.IPv6Address:
    if isinstance(address, ipaddress.IPv6Address):
        return address
    return ipaddress.IPv6Address(address)


def is_expected_icmpv6_packet(packet: bytes | None, icmpv6_type: int) -> bool:
    """Returns True if packet is an ICMPv6 packet of the given type."""
    if not packet:
        return False
    try:
        if Ipv6Header.parse(packet).next_header != constants.IPPROTO_ICMPV6:
            return False
        return Icmpv6Header.parse(packet, Ipv6Header.SIZE).type == icmpv6_type
    except MalformedPacketError:
        return False


def is_from_ipv6_source(packet: bytes | None, src: _Ipv6AddressLike) -> bool:
    """Returns True if the IPv6 source address of packet is src."""
    if not packet:
        return False
    try:
        return Ipv6Header.parse(packet).src_ip == _to_ipv6_address(src)
    except MalformedPacketError:
        return False


def is_to_ipv6_destination(
    packet: bytes | None, dst: _Ipv6AddressLike
) -> bool:
    """Returns True if the IPv6 destination address of packet is dst."""
    if not packet:
        return False
    try:
        return Ipv6Header.parse(packet).dst_ip == _to_ipv6_address(dst)
    except MalformedPacketError:
        return False


def get_ra_pios(ra_msg: bytes | None) -> list[PrefixInformationOption]:
    """Returns the Prefix Information Options of an ICMPv6 RA message.

    Args:
        ra_msg: A raw IPv6 packet, starting at the IPv6 header.

    Returns:
        The PIOs in the order they appear in the message. The list is empty
        if ra_msg is not a Router Advertisement. Scanning stops at the first
        truncated option or at a non-PIO option with a zero length, and the
        PIOs found before it are returned.
    """
    pios = []
    if not ra_msg:
        return pios

    try:
        if Ipv6Header.parse(ra_msg).next_header != constants.IPPROTO_ICMPV6:
            return pios
        offset = Ipv6Header.SIZE
        icmpv6_header = Icmpv6Header.parse(ra_msg, offset)
        if icmpv6_header.type != constants.Icmpv6Type.ROUTER_ADVERTISEMENT:
            return pios
        offset += Icmpv6Header.SIZE
        RaHeader.parse(ra_msg, offset)
        offset += RaHeader.SIZE
    except MalformedPacketError:
        return pios

    while offset + 2 <= len(ra_msg):
        opt_type = ra_msg[offset]
        length = ra_msg[offset + 1]
        if opt_type == constants.NdOptionType.PREFIX_INFORMATION:
            try:
                pios.append(PrefixInformationOption.parse(ra_msg, offset))
            except MalformedPacketError:
                logging.debug('Truncated PIO at offset %d, stop scanning.', offset)
                break
            # A PIO has a fixed size, whatever its length field says.
            offset += PrefixInformationOption.SIZE
        elif length == 0:
            logging.debug(
                'ND option type %d at offset %d has zero length, stop scanning.',
                opt_type,
                offset,
            )
            break
        else:
            # The length is in units of 8 octets.
            offset += length * 8
    return pios
