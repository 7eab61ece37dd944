from aws_cdk import aws_certificatemanager as acm
from constructs import Construct


def certificates_from_arns(scope: Construct, certificate_arns: list[str]) -> list[acm.ICertificate]:
    return [
        acm.Certificate.from_certificate_arn(scope, f"AcmCertificate-{index}", arn)
        for index, arn in enumerate(certificate_arns)
    ]
