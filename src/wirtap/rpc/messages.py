"""Builders for Web Inspector selector messages.

Every message is a ``{"__selector": ..., "__argument": {...}}`` dictionary.
Protocol commands are wrapped in ``_rpc_forwardSocketData:`` and, unless they
address the target domain directly, in ``Target.sendMessageToTarget``.

PUBLIC API:
  - RemoteMessages: Selector and protocol command builders
  - is_direct_command: Whether a method is sent without target wrapping
"""

import json
from typing import Any

OBJECT_GROUP = "console"

# Commands that get the full set of evaluation defaults
FULL_COMMANDS = frozenset(
    {
        "Page.getCookies",
        "Runtime.awaitPromise",
        "Runtime.callFunctionOn",
        "Runtime.evaluate",
        "Timeline.start",
        "Timeline.stop",
    }
)

# Commands addressed to the Target domain itself
DIRECT_COMMANDS = frozenset({"Target.exists", "Target.setPauseOnStart", "Target.resume"})

FULL_COMMAND_DEFAULTS = {
    "objectGroup": OBJECT_GROUP,
    "includeCommandLineAPI": True,
    "doNotPauseOnExceptionsAndMuteConsole": False,
    "emulateUserGesture": False,
    "generatePreview": False,
    "saveResult": False,
}


def is_direct_command(method: str) -> bool:
    return method in DIRECT_COMMANDS


def _omit_none(values: dict) -> dict:
    return {k: v for k, v in values.items() if v is not None}


class RemoteMessages:
    """Build selector messages for the inspector relay."""

    def set_connection_key(self, conn_id: str) -> dict:
        return {
            "__argument": {"WIRConnectionIdentifierKey": conn_id},
            "__selector": "_rpc_reportIdentifier:",
        }

    def connect_to_app(self, conn_id: str, app_id_key: str) -> dict:
        return {
            "__argument": {
                "WIRConnectionIdentifierKey": conn_id,
                "WIRApplicationIdentifierKey": app_id_key,
            },
            "__selector": "_rpc_forwardGetListing:",
        }

    def set_sender_key(self, conn_id: str, sender_id: str, app_id_key: str, page_id_key: Any = None) -> dict:
        return {
            "__argument": _omit_none(
                {
                    "WIRApplicationIdentifierKey": app_id_key,
                    "WIRConnectionIdentifierKey": conn_id,
                    "WIRSenderKey": sender_id,
                    "WIRPageIdentifierKey": page_id_key,
                    "WIRAutomaticallyPause": False,
                }
            ),
            "__selector": "_rpc_forwardSocketSetup:",
        }

    def indicate_web_view(
        self, conn_id: str, app_id_key: str, page_id_key: Any = None, enabled: bool | None = None
    ) -> dict:
        return {
            "__argument": _omit_none(
                {
                    "WIRApplicationIdentifierKey": app_id_key,
                    "WIRIndicateEnabledKey": True if enabled is None else enabled,
                    "WIRConnectionIdentifierKey": conn_id,
                    "WIRPageIdentifierKey": page_id_key,
                }
            ),
            "__selector": "_rpc_forwardIndicateWebView:",
        }

    def launch_application(self, bundle_id: str) -> dict:
        return {
            "__argument": {"WIRApplicationBundleIdentifierKey": bundle_id},
            "__selector": "_rpc_requestApplicationLaunch:",
        }

    def protocol_command(
        self,
        method: str,
        params: dict | None,
        msg_id: int,
        conn_id: str,
        sender_id: str,
        app_id_key: str | None = None,
        page_id_key: Any = None,
        target_id: str | None = None,
    ) -> dict:
        """Wrap a protocol method for ``_rpc_forwardSocketData:``.

        Args:
            method: Protocol method, e.g. "Runtime.evaluate".
            params: Method parameters.
            msg_id: Inner message id the reply will carry.
            conn_id: Connection identifier.
            sender_id: Sender identifier.
            app_id_key: Target application.
            page_id_key: Target page.
            target_id: Target id for Target.sendMessageToTarget.

        Returns:
            Selector message whose WIRSocketDataKey is still a dict.
        """
        params = dict(params or {})
        if is_direct_command(method):
            socket_data = {"id": msg_id, "method": method, "params": params}
        else:
            if method in FULL_COMMANDS:
                params = {**FULL_COMMAND_DEFAULTS, **params}
            socket_data = {
                "method": "Target.sendMessageToTarget",
                "params": {
                    "targetId": target_id,
                    "message": json.dumps({"id": msg_id, "method": method, "params": params}),
                },
            }

        return {
            "__argument": _omit_none(
                {
                    "WIRSocketDataKey": socket_data,
                    "WIRConnectionIdentifierKey": conn_id,
                    "WIRSenderKey": sender_id,
                    "WIRApplicationIdentifierKey": app_id_key,
                    "WIRPageIdentifierKey": page_id_key,
                }
            ),
            "__selector": "_rpc_forwardSocketData:",
        }


__all__ = ["RemoteMessages", "is_direct_command", "FULL_COMMANDS", "DIRECT_COMMANDS"]
