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
"""Unit tests for nsd_utils."""

import base64
import datetime
import ipaddress
import unittest
from unittest import mock

from mobly.snippet import callback_event
from mobly.snippet import errors

from thread_network import constants
from thread_network import nsd_utils

_CALLBACK_ID = '2-1'
_SERVICE_TYPE = '_test._udp'


def _service_data(name, port=12345, addresses=('fd00:db8::1',), txt=None):
    return {
        'serviceName': name,
        'serviceType': _SERVICE_TYPE,
        'hostAddresses': list(addresses),
        'port': port,
        'attributes': {
            k: base64.b64encode(v).decode('utf-8')
            for k, v in (txt or {}).items()
        },
    }


def _event(name, service_data):
    return callback_event.CallbackEvent(
        callback_id=_CALLBACK_ID,
        name=name,
        creation_time=0,
        data={constants.NsdEventDataKey.SERVICE_INFO: service_data},
    )


def _fake_handler(events):
    """Returns a callback handler mock replaying the given events."""
    handler = mock.MagicMock()
    handler.callback_id = _CALLBACK_ID

    def _wait_for_event(event_name, predicate, timeout=None):
        for event in events:
            if event.name == event_name and predicate(event):
                return event
        raise errors.CallbackHandlerTimeoutError(
            None, f'Timed out after waiting {timeout}s for "{event_name}".'
        )

    def _wait_and_get(event_name, timeout=None):
        return _wait_for_event(event_name, lambda e: True, timeout)

    handler.waitForEvent.side_effect = _wait_for_event
    handler.waitAndGet.side_effect = _wait_and_get
    return handler


class DiscoverServiceTest(unittest.TestCase):

    def setUp(self):
        super().setUp()
        self.ad = mock.MagicMock()

    def test_returns_first_found_service(self):
        handler = _fake_handler([
            _event(
                constants.NsdDiscoveryEventName.ON_SERVICE_FOUND,
                _service_data('first'),
            ),
            _event(
                constants.NsdDiscoveryEventName.ON_SERVICE_FOUND,
                _service_data('second'),
            ),
        ])
        self.ad.thread.nsdDiscoverServices.return_value = handler

        service = nsd_utils.discover_service(self.ad, _SERVICE_TYPE)

        self.assertEqual(service.service_name, 'first')
        self.assertEqual(service.service_type, _SERVICE_TYPE)
        self.ad.thread.nsdDiscoverServices.assert_called_once_with(_SERVICE_TYPE)
        self.assertEqual(handler.waitAndGet.call_args.kwargs['timeout'], 20.0)
        self.ad.thread.nsdStopServiceDiscovery.assert_called_once_with(
            _CALLBACK_ID
        )

    def test_timeout_stops_discovery(self):
        self.ad.thread.nsdDiscoverServices.return_value = _fake_handler([])

        with self.assertRaisesRegex(TimeoutError, '_test._udp'):
            nsd_utils.discover_service(
                self.ad, _SERVICE_TYPE, datetime.timedelta(seconds=1)
            )
        self.ad.thread.nsdStopServiceDiscovery.assert_called_once_with(
            _CALLBACK_ID
        )

    def test_service_lost(self):
        handler = _fake_handler([
            _event(
                constants.NsdDiscoveryEventName.ON_SERVICE_FOUND,
                _service_data('kept'),
            ),
            _event(
                constants.NsdDiscoveryEventName.ON_SERVICE_LOST,
                _service_data('gone'),
            ),
        ])
        self.ad.thread.nsdDiscoverServices.return_value = handler

        discovery = nsd_utils.discover_for_service_lost(self.ad, _SERVICE_TYPE)
        try:
            lost = nsd_utils.wait_for_service_lost(discovery)
        finally:
            nsd_utils.stop_service_discovery(self.ad, discovery)

        self.assertEqual(lost.service_name, 'gone')
        self.ad.thread.nsdStopServiceDiscovery.assert_called_once_with(
            _CALLBACK_ID
        )

    def test_service_lost_timeout(self):
        with self.assertRaises(TimeoutError):
            nsd_utils.wait_for_service_lost(
                _fake_handler([]), datetime.timedelta(seconds=1)
            )


class ResolveServiceTest(unittest.TestCase):

    def setUp(self):
        super().setUp()
        self.ad = mock.MagicMock()
        self.service = constants.NsdServiceInfo(
            service_name='test-service', service_type=_SERVICE_TYPE
        )

    def test_resolve_service(self):
        self.ad.thread.nsdRegisterServiceInfoCallback.return_value = (
            _fake_handler([
                _event(
                    constants.NsdServiceInfoCallbackEventName.ON_SERVICE_UPDATED,
                    _service_data('test-service', txt={'key': b'value'}),
                ),
            ])
        )

        resolved = nsd_utils.resolve_service(self.ad, self.service)

        self.assertEqual(resolved.port, 12345)
        self.assertEqual(
            resolved.host_addresses, (ipaddress.IPv6Address('fd00:db8::1'),)
        )
        self.assertEqual(resolved.attributes, {'key': b'value'})
        self.ad.thread.nsdRegisterServiceInfoCallback.assert_called_once_with(
            self.service.to_dict()
        )
        self.ad.thread.nsdUnregisterServiceInfoCallback.assert_called_once_with(
            _CALLBACK_ID
        )

    def test_resolve_service_until(self):
        updated = constants.NsdServiceInfoCallbackEventName.ON_SERVICE_UPDATED
        self.ad.thread.nsdRegisterServiceInfoCallback.return_value = (
            _fake_handler([
                _event(updated, _service_data('test-service', addresses=())),
                _event(
                    updated,
                    _service_data(
                        'test-service', addresses=('fd00:db8::1', '10.0.0.2')
                    ),
                ),
            ])
        )

        resolved = nsd_utils.resolve_service_until(
            self.ad, self.service, lambda s: len(s.host_addresses) > 1
        )

        self.assertEqual(
            resolved.host_addresses,
            (
                ipaddress.IPv6Address('fd00:db8::1'),
                ipaddress.IPv4Address('10.0.0.2'),
            ),
        )

    def test_resolve_timeout_unregisters(self):
        self.ad.thread.nsdRegisterServiceInfoCallback.return_value = (
            _fake_handler([])
        )

        with self.assertRaisesRegex(TimeoutError, 'test-service'):
            nsd_utils.resolve_service(
                self.ad, self.service, datetime.timedelta(seconds=1)
            )
        self.ad.thread.nsdUnregisterServiceInfoCallback.assert_called_once_with(
            _CALLBACK_ID
        )


class NsdServiceInfoTest(unittest.TestCase):

    def test_to_dict_and_from_dict(self):
        service = constants.NsdServiceInfo(
            service_name='printer',
            service_type='_ipp._tcp',
            host_addresses=(ipaddress.IPv6Address('fd00::2'),),
            port=631,
            attributes={'rp': b'ipp/print', 'empty': b''},
            network='101',
        )

        data = service.to_dict()

        self.assertEqual(data['hostAddresses'], ['fd00::2'])
        self.assertEqual(data['attributes']['rp'], 'aXBwL3ByaW50')
        self.assertEqual(constants.NsdServiceInfo.from_dict(data), service)

    def test_from_dict_with_missing_optional_fields(self):
        service = constants.NsdServiceInfo.from_dict(
            {'serviceName': 'a', 'serviceType': '_b._tcp', 'attributes': None}
        )
        self.assertEqual(service.host_addresses, ())
        self.assertEqual(service.port, 0)
        self.assertEqual(service.attributes, {})
        self.assertIsNone(service.network)

    def test_is_hashable(self):
        service = constants.NsdServiceInfo(
            'a', '_b._tcp', attributes={'key': b'value'}
        )
        same = constants.NsdServiceInfo(
            'a', '_b._tcp', attributes={'key': b'value'}
        )
        other = constants.NsdServiceInfo(
            'a', '_b._tcp', attributes={'key': b'other'}
        )

        self.assertEqual(hash(service), hash(same))
        self.assertEqual(len({service, same}), 1)
        self.assertNotEqual(service, other)
        self.assertEqual(len({service, other}), 2)


if __name__ == '__main__':
    unittest.main()
