"""
Directory Service package for the Directory Access Layer.

Answers authorization questions about the caller identified by the upstream
proxy, backed by an on-demand cache of Active Directory lookups:

- app.main: Application entrypoint that wires routes and lifecycle.
- app.trust: Trust gate for the proxy-asserted identity.
- app.bootstrap: Settings and TLS validation plus the startup connection check.
- app.connector: ldap3 client behind the ``DirectoryConnector`` protocol.
- app.cache: Cache stores and the lookup orchestrator.
- app.groups: Group catalogue and multi-user intersections.

Module import must not perform network calls. The directory is first
contacted from the startup hook.
"""
