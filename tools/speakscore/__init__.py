"""
speakscore

Strict evaluation of spoken practice attempts:
- A recording session captures microphone audio and a live transcript in parallel
- Silence after the last final transcript ends the attempt; a hard cap is the safety net
- Transcripts are scored on char similarity, content-word F1, language likelihood, confidence
- Without a usable transcript the captured audio is scored on duration, RMS, zero-crossing rate
- Verdict = pass/fail, 0..100 score, ordered reason codes
"""
