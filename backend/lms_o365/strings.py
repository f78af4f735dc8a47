"""User-facing language strings.

Strings are grouped by component, mirroring the plugin layout on the LMS
side. Placeholders use the LMS convention: ``{$a}`` for a scalar argument
and ``{$a->name}`` for a field of a mapping argument.
"""

import re
from collections.abc import Mapping
from typing import Any

LOCAL_O365: dict[str, str] = {
    "pluginname": "Microsoft Office 365 Integration",
    "calendar_user": "Personal (User) Calendar",
    "calendar_site": "Sitewide Calendar",
    "errorcouldnotrefreshtoken": "Could not refresh token",
    "errorchecksystemapiuser": (
        "Could not get a system API user token, please run the health check, "
        "ensure that cron is running, and refresh the system API user if necessary."
    ),
    "erroro365apibadcall": "Error in API call.",
    "erroro365apibadcall_message": "Error in API call: {$a}",
    "erroro365apiinvalidtoken": "Invalid or expired token.",
    "erroro365apinoparentinfo": "Could not find parent folder information",
    "erroro365apinotoken": (
        "Did not have a token for the given resource and user, and could not "
        "get one. Is the user's refresh token expired?"
    ),
    "errorcoursenotsubsiteenabled": "This course is not Sharepoint subsite enabled.",
    "errorusermatched": (
        'The Office 365 account "{$a->aadupn}" is already matched with Moodle '
        'user "{$a->username}". To complete the connection, please log in as '
        "that Moodle user first and follow the instructions in the Microsoft block."
    ),
    "task_calendarsyncin": "Sync o365 events in to Moodle",
    "task_groupcreate": "Create user groups in Office 365",
    "task_refreshsystemrefreshtoken": "Refresh system API user refresh token",
    "task_processmatchqueue": "Process Match Queue",
    "task_processmatchqueue_err_museralreadymatched": (
        "Moodle user is already matched to an Office 365 user."
    ),
    "task_processmatchqueue_err_museralreadyo365": (
        "Moodle user is already connected to Office 365."
    ),
    "task_processmatchqueue_err_nomuser": "No Moodle user found with this username.",
    "task_processmatchqueue_err_noo365user": (
        "No Office 365 user found with this username."
    ),
    "task_processmatchqueue_err_o365useralreadymatched": (
        "Office 365 user is already matched to a Moodle user."
    ),
    "task_processmatchqueue_err_o365useralreadyconnected": (
        "Office 365 user is already connected to a Moodle user."
    ),
    "ucp_connectionstatus": "Connection Status",
    "ucp_calsync_availcal": "Available Moodle Calendars",
    "ucp_calsync_title": "Outlook Calendar sync settings",
    "ucp_calsync_desc": (
        "Checked calendars will be synced from Moodle to your Outlook calendar."
    ),
    "ucp_connection_status": "Office 365 connection is:",
    "ucp_connection_start": "Connect to Office 365",
    "ucp_connection_stop": "Disconnect from Office 365",
    "ucp_connection_options": "Connection Options:",
    "ucp_connection_desc": (
        "Here you can configure how you connect to Office 365. To use Office 365 "
        "features, you must be connected to an Office 365 account. This can be "
        "done one of two ways, outlined below."
    ),
    "ucp_connection_aadlogin": "Use your Office 365 credentials to log in to Moodle",
    "ucp_connection_aadlogin_start": "Start using Office 365 to log in to Moodle.",
    "ucp_connection_aadlogin_stop": "Stop using Office 365 to log in to Moodle.",
    "ucp_connection_aadlogin_active": (
        'You are using the Office 365 account "{$a}" to log in to Moodle.'
    ),
    "ucp_connection_aadlogin_desc_authcode": (
        "Instead of entering a username and password on the Moodle login page, "
        'you will see a section that says "Login using your account on {$a}" on '
        "the login page. You will click the link and be redirected to Office 365 "
        "to log in. After you have logged in to Office 365 successfully, you will "
        "be returned to Moodle and logged in to your account."
    ),
    "ucp_connection_linked": "Link your Moodle and Office 365 accounts",
    "ucp_connection_linked_desc": (
        "Linking your Moodle and Office 365 accounts allows you to use Office 365 "
        "Moodle features without changing how you log in to Moodle. Clicking the "
        "link below will send you to Office 365 to perform a one-time login, "
        "after which you will be returned here."
    ),
    "ucp_connection_linked_active": 'You are linked to Office 365 account "{$a}".',
    "ucp_connection_linked_start": (
        "Link your Moodle account to an Office 365 account."
    ),
    "ucp_connection_linked_migrate": "Switch to linked account.",
    "ucp_connection_linked_stop": (
        "Unlink your Moodle account from the Office 365 account."
    ),
    "ucp_connection_disconnected": "You are not connected to Office 365.",
    "ucp_features": "Office 365 Features",
    "ucp_features_intro": (
        "Below is a list of the features you can use to enhance Moodle with "
        "Office 365."
    ),
    "ucp_features_intro_notconnected": (
        " Some of these may not be available until you are connected to Office 365."
    ),
    "ucp_general_intro": "Here you can manage your connection to Office 365.",
    "ucp_general_intro_notconnected_nopermissions": (
        "To connect to Office 365 you will need to contact your site administrator."
    ),
    "ucp_index_calendar_title": "Outlook Calendar sync settings",
    "ucp_index_calendar_desc": (
        "Here you can set up syncing between your Moodle and Outlook calendars. "
        "You can export Moodle calendar events to Outlook, and bring Outlook "
        "events into Moodle."
    ),
    "ucp_index_connection_title": "Office 365 connection settings",
    "ucp_index_connection_desc": "Configure how you connect to Office 365.",
    "ucp_index_connectionstatus_title": "Connection Status",
    "ucp_index_connectionstatus_login": "Click here to log in.",
    "ucp_index_connectionstatus_usinglogin": (
        "You are currently using Office 365 to log in to Moodle."
    ),
    "ucp_index_connectionstatus_usinglinked": (
        "You are linked to an Office 365 account."
    ),
    "ucp_index_connectionstatus_connect": "Click here to connect.",
    "ucp_index_connectionstatus_manage": "Manage Connection",
    "ucp_index_connectionstatus_disconnect": "Disconnect",
    "ucp_index_connectionstatus_reconnect": "Refresh Connection",
    "ucp_index_connectionstatus_connected": "You are currently connected to Office 365",
    "ucp_index_connectionstatus_matched": (
        'You have been matched with Office 365 user "{$a}". To complete this '
        "connection, please click the link below and log in to Office 365."
    ),
    "ucp_index_connectionstatus_notconnected": (
        "You are not currently connected to Office 365"
    ),
    "ucp_index_onenote_title": "OneNote",
    "ucp_index_onenote_desc": (
        "OneNote integration allows you to use Office 365 OneNote with Moodle. "
        "You can complete assignments using OneNote and easily take notes for "
        "your courses."
    ),
    "ucp_notconnected": "Please connect to Office 365 before visiting here.",
    "ucp_onenote_title": "OneNote",
    "ucp_onenote_desc": "This page provides options for Office 365 OneNote.",
    "ucp_onenote_disable": "Disable Office 365 OneNote",
    "ucp_status_enabled": "Active",
    "ucp_status_disabled": "Not Connected",
    "ucp_syncwith_title": "Sync With:",
    "ucp_syncdir_title": "Sync Behavior:",
    "ucp_syncdir_out": "From Moodle to Outlook",
    "ucp_syncdir_in": "From Outlook To Moodle",
    "ucp_syncdir_both": "Update both Outlook and Moodle",
    "ucp_title": "Office 365 / Moodle Control Panel",
    "ucp_options": "Options",
    "ucp_o365accountconnected": (
        "This Office 365 account is already connected with another Moodle account."
    ),
    "acp_parentsite_name": "Moodle",
    "acp_parentsite_desc": "Site for shared Moodle course data.",
}

REPOSITORY_OFFICE365: dict[str, str] = {
    "pluginname": "Office 365",
    "courses": "Courses",
    "defaultgroupsfolder": "Course Files",
    "erroraccessdenied": "Access denied",
    "errorauthoidcnotconfig": (
        "Please configure the OpenID Connect authentication plugin before "
        "attempting to use the Office 365 repository."
    ),
    "errorbadclienttype": "Invalid client type.",
    "errorbadpath": "Bad Path",
    "erroro365required": (
        "This file is currently only available to Office 365 users."
    ),
    "errorwhiledownload": "An error occurred while downloading the file",
    "file": "File",
    "filenotfound": "Sorry, the requested file could not be found",
    "groups": "Groups",
    "myfiles": "My Office 365 Files",
    "notconfigured": (
        "To use this plugin, you must first configure the Office 365 plugins."
    ),
    "office365video": "Office 365 Video",
    "trendingaround": "Files Trending Around Me",
    "upload": "Upload New File",
}

LOCAL_ONENOTE: dict[str, str] = {
    "pluginname": "Microsoft OneNote",
    "submissiontitle": (
        "Submission: {$a->assign_name} "
        "[{$a->student_firstname} {$a->student_lastname}]"
    ),
    "feedbacktitle": (
        "Feedback: {$a->assign_name} "
        "[{$a->student_firstname} {$a->student_lastname}]"
    ),
}

STRINGS: dict[str, dict[str, str]] = {
    "local_o365": LOCAL_O365,
    "repository_office365": REPOSITORY_OFFICE365,
    "local_onenote": LOCAL_ONENOTE,
}

_FIELD_PLACEHOLDER = re.compile(r"\{\$a->(\w+)\}")


def get_string(
    identifier: str,
    component: str = "local_o365",
    a: Any = None,
) -> str:
    """Look up a language string and substitute its placeholders.

    Args:
        identifier: String key within the component
        component: Component name (local_o365, repository_office365, ...)
        a: Scalar for ``{$a}`` or a mapping/object for ``{$a->field}``

    Returns:
        The formatted string, or ``[[identifier]]`` if the key is unknown
    """
    text = STRINGS.get(component, {}).get(identifier)
    if text is None:
        return f"[[{identifier}]]"

    if a is None:
        return text

    def _field(match: re.Match[str]) -> str:
        name = match.group(1)
        if isinstance(a, Mapping):
            value = a.get(name, "")
        else:
            value = getattr(a, name, "")
        return str(value)

    text = _FIELD_PLACEHOLDER.sub(_field, text)
    if not isinstance(a, Mapping):
        text = text.replace("{$a}", str(a))
    return text
