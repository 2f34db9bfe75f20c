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

from mobly.controllers import android_device


def set_screen_on_and_unlock(ad: android_device.AndroidDevice):
    """Sets the screen to stay on and unlocks the device.

    Args:
        ad: AndroidDevice instance.
    """
    ad.adb.shell("svc power stayon true")
    ad.adb.shell("input keyevent KEYCODE_WAKEUP")
    ad.adb.shell("wm dismiss-keyguard")


def get_sdk_version(ad: android_device.AndroidDevice) -> int:
    """Returns the API level of the device."""
    return int(ad.build_info["build_version_sdk"])


def run_ot_ctl(ad: android_device.AndroidDevice, command: str) -> str:
    """Runs an ot-ctl command on the device and returns its output."""
    return ad.adb.shell(f"ot-ctl {command}").decode("utf-8")
