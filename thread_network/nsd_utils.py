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
"""Utility functions for interacting with the NsdManager snippet RPCs."""

import datetime
from typing import Callable

from mobly.controllers import android_device
from mobly.controllers.android_device_lib import callback_handler_v2
from mobly.snippet import errors

from thread_network import constants

_SERVICE_INFO = constants.NsdEventDataKey.SERVICE_INFO
_DISCOVERY_TIMEOUT = constants.SERVICE_DISCOVERY_TIMEOUT


def discover_service(
    ad: android_device.AndroidDevice,
    service_type: str,
    timeout: datetime.timedelta = _DISCOVERY_TIMEOUT,
) -> constants.NsdServiceInfo:
    """Returns the first discovered service of service_type.

    Service discovery is always stopped before this returns.

    Args:
        ad: The Android device controller with the Thread snippet loaded.
        service_type: The DNS-SD service type, e.g. "_test._udp".
        timeout: The time to wait for a service to be found.

    Raises:
        TimeoutError: If no service is found in time.
    """
    discovery_handler = ad.thread.nsdDiscoverServices(service_type)
    try:
        event = discovery_handler.waitAndGet(
            event_name=constants.NsdDiscoveryEventName.ON_SERVICE_FOUND,
            timeout=timeout.total_seconds(),
        )
    except errors.CallbackHandlerTimeoutError as e:
        raise TimeoutError(
            f'{ad} found no {service_type} service in {timeout}.'
        ) from e
    finally:
        stop_service_discovery(ad, discovery_handler)
    service_info = constants.NsdServiceInfo.from_dict(event.data[_SERVICE_INFO])
    ad.log.info('Discovered service %s.', service_info.service_name)
    return service_info


def discover_for_service_lost(
    ad: android_device.AndroidDevice,
    service_type: str,
) -> callback_handler_v2.CallbackHandlerV2:
    """Starts discovering services of service_type to watch for a lost one.

    The caller owns the returned discovery: wait on it with
    `wait_for_service_lost` and stop it with `stop_service_discovery`.

    Returns:
        The callback handler of the discovery.
    """
    return ad.thread.nsdDiscoverServices(service_type)


def wait_for_service_lost(
    discovery_handler: callback_handler_v2.CallbackHandlerV2,
    timeout: datetime.timedelta = _DISCOVERY_TIMEOUT,
) -> constants.NsdServiceInfo:
    """Returns the service reported lost by a discovery.

    Raises:
        TimeoutError: If no service gets lost in time.
    """
    try:
        event = discovery_handler.waitAndGet(
            event_name=constants.NsdDiscoveryEventName.ON_SERVICE_LOST,
            timeout=timeout.total_seconds(),
        )
    except errors.CallbackHandlerTimeoutError as e:
        raise TimeoutError(f'No service was lost in {timeout}.') from e
    return constants.NsdServiceInfo.from_dict(event.data[_SERVICE_INFO])


def stop_service_discovery(
    ad: android_device.AndroidDevice,
    discovery_handler: callback_handler_v2.CallbackHandlerV2,
) -> None:
    ad.thread.nsdStopServiceDiscovery(discovery_handler.callback_id)


def resolve_service(
    ad: android_device.AndroidDevice,
    service_info: constants.NsdServiceInfo,
    timeout: datetime.timedelta = _DISCOVERY_TIMEOUT,
) -> constants.NsdServiceInfo:
    """Resolves the service."""
    return resolve_service_until(ad, service_info, lambda s: True, timeout)


def resolve_service_until(
    ad: android_device.AndroidDevice,
    service_info: constants.NsdServiceInfo,
    predicate: Callable[[constants.NsdServiceInfo], bool],
    timeout: datetime.timedelta = _DISCOVERY_TIMEOUT,
) -> constants.NsdServiceInfo:
    """Returns the first resolved service that satisfies the predicate.

    The service info callback is always unregistered before this returns.

    Args:
        ad: The Android device controller with the Thread snippet loaded.
        service_info: The service to resolve, usually a discovered one.
        predicate: The condition the resolved service must meet.
        timeout: The time to wait for a matching update.

    Raises:
        TimeoutError: If no matching update arrives in time.
    """
    resolve_handler = ad.thread.nsdRegisterServiceInfoCallback(
        service_info.to_dict()
    )

    def _is_expected_service(event) -> bool:
        return predicate(
            constants.NsdServiceInfo.from_dict(event.data[_SERVICE_INFO])
        )

    try:
        event = resolve_handler.waitForEvent(
            event_name=constants.NsdServiceInfoCallbackEventName.ON_SERVICE_UPDATED,
            predicate=_is_expected_service,
            timeout=timeout.total_seconds(),
        )
    except errors.CallbackHandlerTimeoutError as e:
        raise TimeoutError(
            f'{ad} failed to resolve {service_info.service_name}.'
            f'{service_info.service_type} in {timeout}.'
        ) from e
    finally:
        ad.thread.nsdUnregisterServiceInfoCallback(resolve_handler.callback_id)
    return constants.NsdServiceInfo.from_dict(event.data[_SERVICE_INFO])
