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
"""Util for Thread integration tests."""

from collections.abc import Collection
import datetime
import ipaddress
import logging
import socket
import time
from typing import Any, Callable

from mobly.controllers import android_device
from mobly.snippet import errors

from thread_network import constants
from thread_network import packet_reader
import thread_test_utils

_DEVICE_ROLE = constants.ThreadStateCallbackDataKey.DEVICE_ROLE
_CALLBACK_NAME = constants.NetworkCbEventKey.CALLBACK_NAME
_TRANSPORT_TYPE_THREAD = (
    constants.NetworkCapabilities.Transport.TRANSPORT_THREAD
)
_NET_CAPABILITY_LOCAL_NETWORK = (
    constants.NetworkCapabilities.NetCapability.NET_CAPABILITY_LOCAL_NETWORK
)


def wait_for(
    condition: Callable[[], bool],
    timeout: datetime.timedelta,
) -> None:
    """Waits for the given condition to be true until given timeout.

    The condition is checked every 500ms, and once more when the timeout
    expires.

    Args:
        condition: The condition to check.
        timeout: The time to wait for the condition before throwing.

    Raises:
        TimeoutError: If the condition is still not met when the timeout
            expires.
    """
    interval_sec = constants.POLLING_INTERVAL.total_seconds()
    deadline = time.monotonic() + timeout.total_seconds()

    while True:
        if condition():
            return
        remaining_sec = deadline - time.monotonic()
        if remaining_sec <= 0:
            break
        time.sleep(min(interval_sec, remaining_sec))
    raise TimeoutError(f'The condition failed to become true in {timeout}')


def new_packet_reader(fd: int, mtu: int) -> packet_reader.TapPacketReader:
    """Creates a started packet reader for a TUN interface.

    Args:
        fd: The file descriptor of the TUN interface of the test network.
        mtu: The MTU of the TUN interface.

    Returns:
        The running packet reader.
    """
    reader = packet_reader.TapPacketReader(fd, mtu)
    reader.start(timeout=constants.PACKET_READER_START_TIMEOUT)
    return reader


def poll_for_packet(
    reader: packet_reader.TapPacketReader,
    packet_filter: Callable[[bytes], bool],
) -> bytes | None:
    """Polls for a packet from the reader that satisfies the filter.

    Args:
        reader: A TUN packet reader.
        packet_filter: The filter to be applied on the packet.

    Returns:
        The first IPv6 packet that satisfies the filter, or None if no such
        packet arrives in 3000ms.
    """
    return reader.poll(
        int(constants.PACKET_POLL_TIMEOUT.total_seconds() * 1000),
        packet_filter,
    )


def wait_for_state_any_of(
    ad: android_device.AndroidDevice,
    device_roles: Collection[constants.DeviceRole],
    timeout: datetime.timedelta,
) -> constants.DeviceRole:
    """Waits for the Thread module to enter any of the given device roles.

    Args:
        ad: The Android device controller with the Thread snippet loaded.
        device_roles: The desired device roles.
        timeout: The time to wait for the expected role before throwing.

    Returns:
        The device role after waiting.

    Raises:
        TimeoutError: If the device hasn't become any of the expected roles
            until the timeout expires.
    """
    state_handler = ad.thread.threadRegisterStateCallback()

    def _is_expected_role(event) -> bool:
        return event.data[_DEVICE_ROLE] in device_roles

    try:
        event = state_handler.waitForEvent(
            event_name=constants.ThreadStateCallbackEventName.ON_DEVICE_ROLE_CHANGED,
            predicate=_is_expected_role,
            timeout=timeout.total_seconds(),
        )
    except errors.CallbackHandlerTimeoutError as e:
        raise TimeoutError(
            f"The device didn't become an expected role in {timeout}: {e}"
        ) from e
    finally:
        ad.thread.threadUnregisterStateCallback(state_handler.callback_id)
    role = constants.DeviceRole(event.data[_DEVICE_ROLE])
    ad.log.info('Thread device role is %s.', role.name)
    return role


def send_udp_message(
    dst_address: ipaddress.IPv4Address | ipaddress.IPv6Address | str,
    dst_port: int,
    message: str,
) -> None:
    """Sends a UDP message to a destination.

    Args:
        dst_address: The IP address of the destination.
        dst_port: The port of the destination.
        message: The message in UDP payload.

    Raises:
        ValueError: If dst_address is not a valid IP address.
        OSError: If failed to send the message.
    """
    address = ipaddress.ip_address(dst_address)
    family = socket.AF_INET6 if address.version == 6 else socket.AF_INET
    with socket.socket(family, socket.SOCK_DGRAM) as sock:
        sock.connect((str(address), dst_port))
        sock.send(message.encode('utf-8'))
    logging.debug('Sent UDP message to [%s]:%d.', address, dst_port)


def is_in_multicast_group(
    ad: android_device.AndroidDevice,
    interface_name: str,
    address: ipaddress.IPv6Address | str,
) -> bool:
    """Returns True if the interface has joined the multicast group.

    Raises:
        adb.AdbError: If the shell command fails.
    """
    output = ad.adb.shell(f'ip -6 maddr show dev {interface_name}').decode(
        'utf-8'
    )
    address_str = str(ipaddress.IPv6Address(address))
    for line in output.split('\n'):
        if address_str in line:
            return True
    return False


def get_ipv6_link_addresses(
    ad: android_device.AndroidDevice,
    interface_name: str,
) -> list[constants.LinkAddress]:
    """Returns the IPv6 addresses assigned to the interface.

    Raises:
        adb.AdbError: If the shell command fails.
    """
    output = ad.adb.shell(f'ip -6 addr show dev {interface_name}').decode(
        'utf-8'
    )
    addresses = []
    for line in output.split('\n'):
        if 'inet6' in line:
            addresses.append(_parse_address_line(line))
    ad.log.debug('IPv6 addresses of %s: %s', interface_name, addresses)
    return addresses


def _parse_address_line(line: str) -> constants.LinkAddress:
    """Parses a line of output from "ip -6 addr show" into a LinkAddress.

    Example line: "inet6 2001:db8:1:1::1/64 scope global deprecated"
    """
    parts = line.split()
    address_str, prefix_length = parts[1].split('/', 1)
    if 'deprecated' in line:
        deprecation_time_ms = int(time.monotonic() * 1000)
    else:
        deprecation_time_ms = constants.LIFETIME_PERMANENT
    return constants.LinkAddress(
        address=ipaddress.IPv6Address(address_str),
        prefix_length=int(prefix_length),
        deprecation_time_ms=deprecation_time_ms,
    )


def get_prefixes_from_net_data(net_data: str) -> str:
    """Returns the "Prefixes:" section of Thread network data.

    Args:
        net_data: The output of "ot-ctl netdata show".

    Raises:
        ValueError: If the output has no "Prefixes:" section followed by a
            "Routes:" section.
    """
    start = net_data.index('Prefixes:')
    end = net_data.index('Routes:', start)
    return net_data[start:end]


def get_thread_net_data(ad: android_device.AndroidDevice) -> str:
    """Returns the Thread network data reported by ot-daemon."""
    return thread_test_utils.run_ot_ctl(ad, 'netdata show')


def get_thread_network(
    ad: android_device.AndroidDevice,
    timeout: datetime.timedelta,
) -> Any:
    """Waits for a Thread network to become available.

    Args:
        ad: The Android device controller with the Thread snippet loaded.
        timeout: The time to wait for the network.

    Returns:
        The network handle reported by the snippet.

    Raises:
        TimeoutError: If no Thread network is available in time.
    """
    capabilities = ()
    # Before V, NET_CAPABILITY_LOCAL_NETWORK needs to be set explicitly to
    # request a Thread network.
    if thread_test_utils.get_sdk_version(ad) <= constants.SDK_UPSIDE_DOWN_CAKE:
        capabilities = (_NET_CAPABILITY_LOCAL_NETWORK,)
    network_request = constants.NetworkRequest(
        transport_type=_TRANSPORT_TYPE_THREAD,
        capabilities=capabilities,
    )
    ad.log.debug('Requesting Thread network: %r', network_request)
    network_handler = ad.thread.connectivityRegisterNetworkCallback(
        network_request.to_dict()
    )
    try:
        event = network_handler.waitForEvent(
            event_name=constants.NetworkCbEventName.NETWORK_CALLBACK,
            predicate=lambda e: (
                e.data[_CALLBACK_NAME] == constants.NetworkCbName.ON_AVAILABLE
            ),
            timeout=timeout.total_seconds(),
        )
    except errors.CallbackHandlerTimeoutError as e:
        raise TimeoutError(
            f'{ad} did not get a Thread network in {timeout}.'
        ) from e
    finally:
        ad.thread.connectivityUnregisterNetworkCallback(
            network_handler.callback_id
        )
    return event.data[constants.NetworkCbEventKey.NETWORK]
