"""
Constants for the push transport.
"""

# send_each_for_multicast accepts at most 500 tokens per call
FCM_MAX_MULTICAST_TOKENS = 500

# Firebase app name prefix, suffixed with the project id
FCM_APP_NAME_PREFIX = "shopcast-fcm"

# Android delivery priority for broadcast notifications
FCM_ANDROID_PRIORITY = "high"

# InvalidArgumentError text that identifies a malformed registration token
# rather than a malformed message
FCM_INVALID_TOKEN_MARKERS = (
    "registration token",
    "invalid-registration-token",
)
