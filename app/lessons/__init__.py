"""
Lessons app: the catalog records that point at assembled audio objects.

Only the two tables written by the upload pipeline are modelled here:
- Lesson: a catalog entry (one Torah lesson)
- LessonAudio: one audio file attached to a lesson, in playback order

Browsing, series, playlists and bookmarks live outside this backend.
"""
