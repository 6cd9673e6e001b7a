"""
Content-to-prompt extraction.

- **content_extractor.py**: Turns a post, discussion, profile change or upload
  into an AuditPayload, resolving images inline or by URL.
- **text_utils.py**: Markup stripping, truncation and image URL discovery.
- **image_utils.py**: Local and remote image/text reads with size caps,
  timeouts and MIME sniffing via Pillow.
- **message_builder.py**: Renders a payload into system/user chat messages,
  multimodal when inline images are present.
"""
