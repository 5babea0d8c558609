"""Calendar data: recurrence rules, iCalendar codec and the CalDAV client."""
