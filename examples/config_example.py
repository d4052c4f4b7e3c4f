"""
Configuration and Enrolment Examples for the WEB-SRM client
Demonstrates configuring the client, enrolling a device and signing a
transaction
"""

import logging

from websrm import (
    CertificateStore,
    ConfigLoader,
    ConfigValidator,
    DistinguishedName,
    EnrollmentClient,
    MutualTlsSession,
    ProtocolHeaders,
    RejectedError,
    TransactionSigner,
    TransportError,
    WebSrmConfig,
    WebSrmEnvironment,
)


# =============================================================================
# Example 1: Programmatic Configuration
# =============================================================================

def programmatic_config_example() -> WebSrmConfig:
    """Configure the client programmatically"""
    loader = ConfigLoader()

    return loader.load(
        config={
            # Partner and software registration
            "auth_code": "D8T8-W8W8",
            "partner_id": "0000000000001FF2",
            "certification_code": "FOB201999999",
            "software_id": "0000000000003973",
            "software_version_id": "00000000000045D6",
            "version": "1.0.0",

            # Environment settings
            "environment": WebSrmEnvironment.DEV,  # ESSAI or PROD later
            "timeout": 30000,

            # Certificate storage, keys encrypted at rest
            "cert_dir": "./certs",
            "key_password": "change-me",
        }
    )


# =============================================================================
# Example 2: File + Environment Configuration
# =============================================================================

def merged_config_example() -> WebSrmConfig:
    """
    Merge configuration from multiple sources
    Priority: programmatic > environment (WEBSRM_*) > file
    """
    loader = ConfigLoader()
    return loader.load(
        file="./config/websrm.json",
        env=True,
        config={"timeout": 60000},
    )


# =============================================================================
# Example 3: Enrolment
# =============================================================================

def enrolment_example(config: WebSrmConfig) -> None:
    """Generate a key pair, enrol it and store the bundle"""
    store = CertificateStore(config.cert_dir, key_password=config.key_password)
    client = EnrollmentClient(config, store=store)

    dn = DistinguishedName.from_fields(
        country="CA",
        state="QC",
        locality="-05:00",
        surname="Certificat du serveur",
        organization="RBC-D8T8-W8W8",
        common_name="5678912340",
    )

    try:
        result, bundle = client.enroll(dn, enrollment_id="pos-1")
    except RejectedError as e:
        print(e.get_description())
        return
    except TransportError as e:
        print(f"No response from the certificate authority: {e}")
        return

    print(f"Enrolled, device identifier {result.device_id}")
    print(f"Certificate stored for {bundle.enrollment_id}")


# =============================================================================
# Example 4: Signed Transaction over Mutual TLS
# =============================================================================

def transaction_example(config: WebSrmConfig) -> None:
    """Sign a transaction and send it with the enrolled certificate"""
    store = CertificateStore(config.cert_dir, key_password=config.key_password)
    bundle = store.load("pos-1")

    headers = ProtocolHeaders.from_config(config, device_id=bundle.device_id)
    signer = TransactionSigner(
        bundle,
        headers,
        tps_number="567891234RT0001",
        tvq_number="5678912340TQ0001",
    )
    signed = signer.sign_transaction({
        "noTrans": "0000000001",
        "datTrans": "20250101120000",
        "mont": {"avantTax": "+000010.00", "TPS": "+000000.50", "TVQ": "+000001.00"},
    })

    with MutualTlsSession(config, store=store) as session:
        response = session.post("/transaction", signed.headers, signed.body, bundle)

    print(f"HTTP {response.status}: {response.text[:200]}")
    print(f"Chain the next transaction on {signed.signature}")


# =============================================================================
# Example 5: Configuration Validation
# =============================================================================

def validation_example() -> None:
    """Validate configuration before use"""
    validator = ConfigValidator()

    result = validator.validate({"partner_id": "0000000000001FF2"})

    if not result.valid:
        print("Configuration validation failed:")
        for error in result.errors:
            print(f"  - {error.field}: {error.message}")


# =============================================================================
# Run Examples
# =============================================================================

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    print("=== WEB-SRM Configuration Examples ===\n")

    print("1. Configuration Validation:")
    validation_example()
    print()

    print("2. Programmatic Configuration:")
    config = programmatic_config_example()
    print(f"  enrolment URL: {config.get_resolved_enrolment_url()}")
