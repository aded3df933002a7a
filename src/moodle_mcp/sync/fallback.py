"""
Fallback links into Moodle's own web interface.

Used when a feature's web service function is missing from the probed
capabilities, so the user can finish the job in the browser instead.
"""

from moodle_mcp.sync.capabilities import (
    ATTENDANCE_SESSIONS,
    MESSAGE_CONVERSATIONS,
    CapabilitySet,
)

# feature -> (path template, needs a course id)
FALLBACK_PATHS = {
    "attendance": ("/mod/attendance/view.php?id={course_id}", True),
    "messages": ("/message/index.php", False),
    "grades": ("/grade/report/user/index.php?id={course_id}", True),
}

# Web service function whose absence triggers the fallback
FEATURE_CAPABILITIES = {
    "attendance": ATTENDANCE_SESSIONS,
    "messages": MESSAGE_CONVERSATIONS,
}


def resolve_fallback_url(base_url: str, feature: str, course_id: int | None = None) -> str:
    """
    Build the Moodle web URL for a feature.

    Unknown features, and course-scoped features without a course id,
    resolve to the bare site URL.
    """
    base_url = base_url.rstrip("/")
    template = FALLBACK_PATHS.get(feature)
    if template is None:
        return base_url

    path, needs_course = template
    if needs_course and course_id is None:
        return base_url
    return base_url + path.format(course_id=course_id)


def fallback_for(
    capabilities: CapabilitySet,
    base_url: str,
    feature: str,
    course_id: int | None = None,
) -> str | None:
    """Return the fallback URL when the feature's capability is missing, else None."""
    capability = FEATURE_CAPABILITIES.get(feature)
    if capability is not None and capability in capabilities:
        return None
    return resolve_fallback_url(base_url, feature, course_id)
