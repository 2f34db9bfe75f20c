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
"""Constants for Thread network Mobly tests."""

from __future__ import annotations

import base64
import dataclasses
import datetime
import enum
import ipaddress
import logging
from typing import Any

THREAD_SNIPPET_PACKAGE_NAME = 'com.google.snippet.thread'

# The timeout of join() after restarting ot-daemon. The device needs to send 6
# Link Request every 5 seconds, followed by 4 Parent Request every second. So
# this value needs to be 40 seconds to be safe.
RESTART_JOIN_TIMEOUT = datetime.timedelta(seconds=40)
JOIN_TIMEOUT = datetime.timedelta(seconds=30)
LEAVE_TIMEOUT = datetime.timedelta(seconds=2)
CALLBACK_TIMEOUT = datetime.timedelta(seconds=1)
SERVICE_DISCOVERY_TIMEOUT = datetime.timedelta(seconds=20)

# Interval between two evaluations of a polled condition.
POLLING_INTERVAL = datetime.timedelta(milliseconds=500)
# Per-call timeout when reading the next packet from a TUN interface.
PACKET_POLL_TIMEOUT = datetime.timedelta(milliseconds=3000)
# Timeout for a packet reader thread to report it is running.
PACKET_READER_START_TIMEOUT = datetime.timedelta(seconds=5)

DEFAULT_THREAD_INTERFACE_NAME = 'thread-wpan'

# Same as Long.MAX_VALUE, used by LinkAddress for lifetimes that never end.
LIFETIME_PERMANENT = 2**63 - 1

# Last SDK level which needs NET_CAPABILITY_LOCAL_NETWORK in a Thread request.
SDK_UPSIDE_DOWN_CAKE = 34

IPPROTO_ICMPV6 = 58


@enum.unique
class DeviceRole(enum.IntEnum):
    """Thread device role.

    https://developer.android.com/reference/android/net/thread/ThreadNetworkController#DEVICE_ROLE_STOPPED
    """

    STOPPED = 0
    DETACHED = 1
    CHILD = 2
    ROUTER = 3
    LEADER = 4


@enum.unique
class Icmpv6Type(enum.IntEnum):
    """ICMPv6 message types used by the tests (RFC 4443, RFC 4861)."""

    ECHO_REQUEST = 128
    ECHO_REPLY = 129
    ROUTER_SOLICITATION = 133
    ROUTER_ADVERTISEMENT = 134
    NEIGHBOR_SOLICITATION = 135
    NEIGHBOR_ADVERTISEMENT = 136
    REDIRECT = 137


@enum.unique
class NdOptionType(enum.IntEnum):
    """Neighbor Discovery option types (RFC 4861 section 4.6)."""

    SOURCE_LINK_LAYER_ADDRESS = 1
    TARGET_LINK_LAYER_ADDRESS = 2
    PREFIX_INFORMATION = 3
    REDIRECTED_HEADER = 4
    MTU = 5
    ROUTE_INFORMATION = 24
    RDNSS = 25


@enum.unique
class ThreadStateCallbackEventName(enum.StrEnum):
    """Event names for ThreadNetworkController#StateCallback."""

    ON_DEVICE_ROLE_CHANGED = 'onDeviceRoleChanged'
    ON_PARTITION_ID_CHANGED = 'onPartitionIdChanged'


@enum.unique
class ThreadStateCallbackDataKey(enum.StrEnum):
    """Data keys received from ThreadNetworkController#StateCallback."""

    DEVICE_ROLE = 'deviceRole'
    PARTITION_ID = 'partitionId'


@enum.unique
class NsdDiscoveryEventName(enum.StrEnum):
    """Event names for NsdManager#DiscoveryListener."""

    ON_START_DISCOVERY_FAILED = 'onStartDiscoveryFailed'
    ON_STOP_DISCOVERY_FAILED = 'onStopDiscoveryFailed'
    ON_DISCOVERY_STARTED = 'onDiscoveryStarted'
    ON_DISCOVERY_STOPPED = 'onDiscoveryStopped'
    ON_SERVICE_FOUND = 'onServiceFound'
    ON_SERVICE_LOST = 'onServiceLost'


@enum.unique
class NsdServiceInfoCallbackEventName(enum.StrEnum):
    """Event names for NsdManager#ServiceInfoCallback."""

    ON_REGISTRATION_FAILED = 'onServiceInfoCallbackRegistrationFailed'
    ON_SERVICE_UPDATED = 'onServiceUpdated'
    ON_SERVICE_LOST = 'onServiceLost'
    ON_UNREGISTERED = 'onServiceInfoCallbackUnregistered'


@enum.unique
class NsdEventDataKey(enum.StrEnum):
    """Data keys carried by NSD snippet events."""

    SERVICE_INFO = 'serviceInfo'


@enum.unique
class NetworkCbEventName(enum.StrEnum):
    """Represents the event name for ConnectivityManager network callbacks."""

    NETWORK_CALLBACK = 'NetworkCallback'


@enum.unique
class NetworkCbEventKey(enum.StrEnum):
    """Represents event data keys for ConnectivityManager network callbacks."""

    NETWORK = 'network'
    CALLBACK_NAME = 'callbackName'


@enum.unique
class NetworkCbName(enum.StrEnum):
    """Represents the name of network callback for ConnectivityManager.

    https://developer.android.com/reference/android/net/ConnectivityManager.NetworkCallback
    """

    ON_AVAILABLE = 'onAvailable'
    ON_UNAVAILABLE = 'onUnavailable'
    ON_LOST = 'onLost'
    ON_CAPABILITIES_CHANGED = 'onCapabilitiesChanged'
    ON_PROPERTIES_CHANGED = 'onLinkPropertiesChanged'


class NetworkCapabilities:
    """Network Capabilities.

    https://developer.android.com/reference/android/net/NetworkCapabilities#summary
    """

    class Transport(enum.IntEnum):
        """Transport type."""

        TRANSPORT_CELLULAR = 0
        TRANSPORT_WIFI = 1
        TRANSPORT_BLUETOOTH = 2
        TRANSPORT_ETHERNET = 3
        TRANSPORT_VPN = 4
        TRANSPORT_WIFI_AWARE = 5
        TRANSPORT_LOWPAN = 6
        TRANSPORT_TEST = 7
        TRANSPORT_USB = 8
        TRANSPORT_THREAD = 9

    class NetCapability(enum.IntEnum):
        """Network Capability."""

        NET_CAPABILITY_INTERNET = 12
        NET_CAPABILITY_NOT_RESTRICTED = 13
        NET_CAPABILITY_TRUSTED = 14
        NET_CAPABILITY_NOT_VPN = 15
        NET_CAPABILITY_LOCAL_NETWORK = 36


@dataclasses.dataclass(frozen=True)
class NetworkRequest:
    """Network request sent to the snippet.

    https://developer.android.com/reference/android/net/NetworkRequest
    """

    transport_type: NetworkCapabilities.Transport
    capabilities: tuple[NetworkCapabilities.NetCapability, ...] = ()

    def to_dict(self) -> dict:
        result = {'transport_type': self.transport_type.value}
        if self.capabilities:
            result['capabilities'] = [c.value for c in self.capabilities]
        return result


@dataclasses.dataclass(frozen=True)
class LinkAddress:
    """An IPv6 address assigned to an interface.

    https://developer.android.com/reference/android/net/LinkAddress

    Attributes:
        address: The IPv6 address.
        prefix_length: The prefix length of the subnet.
        flags: The address flags (IFA_F_*).
        scope: The address scope.
        deprecation_time_ms: Elapsed-realtime millis at which the address
            became deprecated, or LIFETIME_PERMANENT.
        expiration_time_ms: Elapsed-realtime millis at which the address
            expires, or LIFETIME_PERMANENT.
    """

    address: ipaddress.IPv6Address
    prefix_length: int
    flags: int = 0
    scope: int = 0
    deprecation_time_ms: int = LIFETIME_PERMANENT
    expiration_time_ms: int = LIFETIME_PERMANENT

    @property
    def is_deprecated(self) -> bool:
        return self.deprecation_time_ms != LIFETIME_PERMANENT

    def __str__(self) -> str:
        return f'{self.address}/{self.prefix_length}'


@dataclasses.dataclass(frozen=True)
class NsdServiceInfo:
    """Represents a DNS-SD service instance.

    https://developer.android.com/reference/android/net/nsd/NsdServiceInfo
    """

    service_name: str
    service_type: str
    host_addresses: tuple[ipaddress.IPv4Address | ipaddress.IPv6Address, ...] = ()
    port: int = 0
    # TXT attributes take part in equality only.
    attributes: dict[str, bytes] = dataclasses.field(
        default_factory=dict, hash=False
    )
    network: str | None = None

    @classmethod
    def from_dict(cls, info: dict[str, Any]) -> NsdServiceInfo:
        """Generates a NsdServiceInfo object from snippet event data.

        TXT attribute values are base64 encoded by the snippet.
        """
        logging.debug(
            'Converting following snippet event data to NsdServiceInfo: %s',
            info,
        )
        attributes = {
            key: base64.b64decode(value) if value is not None else b''
            for key, value in (info.get('attributes') or {}).items()
        }
        return cls(
            service_name=info['serviceName'],
            service_type=info['serviceType'],
            host_addresses=tuple(
                ipaddress.ip_address(address)
                for address in info.get('hostAddresses') or ()
            ),
            port=info.get('port', 0),
            attributes=attributes,
            network=info.get('network'),
        )

    def to_dict(self) -> dict[str, Any]:
        """Converts this NsdServiceInfo to a dictionary for snippet RPCs."""
        result = {
            'serviceName': self.service_name,
            'serviceType': self.service_type,
            'hostAddresses': [str(a) for a in self.host_addresses],
            'port': self.port,
            'attributes': {
                key: base64.b64encode(value).decode('utf-8')
                for key, value in self.attributes.items()
            },
        }
        if self.network is not None:
            result['network'] = self.network
        return result
