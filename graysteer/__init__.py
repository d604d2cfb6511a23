"""Gray release steering for gateway request pipelines.

Decides per request whether traffic carrying a ``gray-name`` header should be
forced onto the gray (canary) variant of its upstream:
 - upstream lookup against the gateway's configuration authority
 - registry query for healthy instances tagged with the requested gray name
 - direct health probe for statically configured nodes

Every failure degrades to "no gray" so a broken dependency never breaks traffic.
"""
